# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Encryption keys never live here: they are kept in the OS credential store (keyring).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "SIDEAI_APP_NAME": "App display name (default: sideai).",
    "SIDEAI_LOG_LEVEL": "Console logging level (default: INFO).",
    "SIDEAI_LOG_DIR": "Directory for sideai.log (default: <data_dir>).",
    # Storage
    "SIDEAI_DATA_DIR": "Private directory holding the encrypted collections (default: .local/sideai).",
    "SIDEAI_KEYRING_SERVICE": "Credential store service name (default: com.sideai.macapp).",
    # Notifications
    "SIDEAI_NOTIFICATIONS_ENABLED": "Deliver due notifications to the console (true/false).",
    "SIDEAI_EVENT_LEAD_MINUTES": "Minutes before an event starts to notify (default: 15).",
    "SIDEAI_DISPATCH_INTERVAL_SECONDS": "Polling interval of the notification dispatcher (default: 5).",
    # Connectors
    "SIDEAI_CONSOLE_ENABLED": "Run the interactive console (true/false).",
}
