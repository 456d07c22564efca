"""Global pytest configuration."""

import os

# Tests run on in-memory storage and deterministic stub providers
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ["OPENAI_API_KEY"] = ""
