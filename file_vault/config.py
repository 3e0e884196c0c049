"""Configuration settings for the file vault service."""
import os

# Storage limits
MAX_CAPACITY_BYTES = int(os.getenv("FILE_VAULT_MAX_CAPACITY_BYTES", 1024 * 1024 * 1024))  # 1GB
DUPLICATE_WINDOW_SECONDS = int(os.getenv("FILE_VAULT_DUPLICATE_WINDOW_SECONDS", 60))
CHUNK_SIZE = 8192  # 8KB chunks

# What happens to a trash record when re-materializing it fails: "retain" or "discard"
RESTORE_FAILURE_POLICY = os.getenv("FILE_VAULT_RESTORE_FAILURE_POLICY", "retain")

# Directory paths
DATA_DIR = os.getenv("FILE_VAULT_DATA_DIR", "./data")
TEMP_DIR = os.getenv("FILE_VAULT_TEMP_DIR", "./temp")
TRASH_DIR = os.getenv("FILE_VAULT_TRASH_DIR", "./trash")
LOGS_DIR = os.getenv("FILE_VAULT_LOGS_DIR", "./logs")

# HTTP
HOST = os.getenv("FILE_VAULT_HOST", "0.0.0.0")
PORT = int(os.getenv("FILE_VAULT_PORT", 5000))
CORS_ORIGINS = [o.strip() for o in os.getenv("FILE_VAULT_CORS_ORIGINS", "*").split(",") if o.strip()]

# Users known to the in-memory directory
USERS = [
    {"username": "hari", "password": "hari69"},
    {"username": "ashwin", "password": "ash69"},
]

# Logz.io shipping is only enabled when a token is configured
LOGZIO_TOKEN = os.getenv("LOGZIO_TOKEN")
LOGZIO_URL = os.getenv("LOGZIO_URL", "https://listener-eu.logz.io:8071")
APP_ENV = os.getenv("APP_ENV", "development")
