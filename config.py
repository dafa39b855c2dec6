import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
MONGO_SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000"))

PORT = int(os.getenv("PORT", "8000"))
PING_MESSAGE = os.getenv("PING_MESSAGE", "ping")

# Upper bound for loading the full patient list, in seconds
PATIENT_LOAD_TIMEOUT = float(os.getenv("PATIENT_LOAD_TIMEOUT", "15"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
