"""Intent classification and parameter extraction.

The intent layer converts an English operational question into a `Classification` (intent,
confidence, matched keywords, typed `Parameters`), which the routing layer turns into a decision.
"""
