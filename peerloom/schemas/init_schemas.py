from peerloom.schemas.init import init_beanie_odm
from peerloom.shared.config import config
from peerloom.shared.storage.mongo import get_mongo_client


async def init_schema():
    mongo_client = get_mongo_client(config.get_mongo_label())
    db = mongo_client.get_default_database(default=config.get("MONGO_DATABASE") or "peerloom")
    await init_beanie_odm(db)


if __name__ == "__main__":
    import asyncio

    asyncio.run(init_schema())
