"""Client library for the A2H Market agent platform: signed API calls, device authorization, lease control, MQTT messaging and message helpers."""

__version__ = "0.1.0"