# support_console/config.py
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database URL - use SQLite for easy local development
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./support_console.db")

# WhatsApp Cloud API
WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v19.0")
WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "")

# Automated responder
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")

# Staff sessions
SESSION_SECRET = os.getenv("SESSION_SECRET", "change-me")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "12"))

# First administrator, created at startup when both are set
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
    ).split(",")
    if origin.strip()
]

SLOT_SWEEP_MINUTES = int(os.getenv("SLOT_SWEEP_MINUTES", "15"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
