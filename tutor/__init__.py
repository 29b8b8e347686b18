"""
VictorAI Russian tutor: Gemini replies, tolerant extraction, conversations and
the HTTP API.
"""
