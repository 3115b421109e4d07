import os
import warnings

# Ignore warnings from peerloom.shared
warnings.filterwarnings("ignore", category=DeprecationWarning, module="peerloom.shared.*")

# Set test environment variables
os.environ.update({"DEMO_MODE": "true", "LIVE_BROADCAST_IN_MEMORY": "true"})

# Import fixtures so they are available to all tests
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403
from tests.fixtures.registry_fixtures import *  # noqa: E402, F403
