"""
Live classroom domain logic.

Includes:
- registry: Host markers and admission requests persisted per group.
- admission: Per-user admission state machine and host waiting room.
- control: Broadcast control messages, media policy and participant state.
- presence: Attendance tracking and export.
- session: Host session lifecycle and the headless participant client.
"""
