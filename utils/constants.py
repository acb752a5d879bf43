"""
Constants and system prompts for the Threadline API.
"""

TITLE_SYSTEM_PROMPT = """You are a helpful assistant. Your task is to generate a concise and relevant title (5 words or less) for the following user query or conversation start. Only output the title itself, nothing else."""

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no"
}

THREAD_ID_HEADER = "X-Thread-ID"

# quote characters stripped from generated titles
TITLE_QUOTES = "\"'"
