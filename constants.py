import json
import os
import sys

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

DEFAULT_ICE_SERVERS = [{"urls": "stun:stun.l.google.com:19302"}]
ICE_SERVERS = json.loads(os.getenv("ICE_SERVERS", "null")) or DEFAULT_ICE_SERVERS

# 0 = no cap on room membership
MAX_MEMBERS = int(os.getenv("MAX_MEMBERS", 0))
ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", 6))

SIGNALING_URL = os.getenv("SIGNALING_URL", "http://localhost:3001")
CONTROL_CHANNEL_LABEL = "controls"

if sys.platform == "darwin":
    _capture_file, _capture_format = "1:none", "avfoundation"
elif sys.platform == "win32":
    _capture_file, _capture_format = "desktop", "gdigrab"
else:
    _capture_file, _capture_format = os.getenv("DISPLAY", ":0.0"), "x11grab"

CAPTURE_FILE = os.getenv("CAPTURE_FILE", _capture_file)
CAPTURE_FORMAT = os.getenv("CAPTURE_FORMAT", _capture_format)
CAPTURE_OPTIONS = json.loads(os.getenv("CAPTURE_OPTIONS", "null")) or {"framerate": "30"}
