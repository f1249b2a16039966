# Oracle Configuration
# Groq models and call pacing for extraction / verification

import os
from dotenv import load_dotenv

load_dotenv()

GROQ_API_KEY = os.getenv("GROQ_API_KEY")

# Text reasoning (web sync, settlement, chat)
TEXT_MODEL = os.getenv("QUANT_NINJA_TEXT_MODEL", "llama-3.3-70b-versatile")

# Screenshot extraction
VISION_MODEL = os.getenv("QUANT_NINJA_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")

# Respect rate limits between consecutive calls
MIN_DELAY_MS = 500

# DuckDuckGo results fed to the model as grounding
SEARCH_MAX_RESULTS = 5
SEARCH_ATTEMPTS = 3

# Generation limits
EXTRACTION_MAX_TOKENS = 1500
VERIFICATION_MAX_TOKENS = 200
