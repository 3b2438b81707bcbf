"""
Domain layer for deal extraction business logic.

This layer contains:
- Closed enumerations and strict output schemas
- Data models (type-safe structures)
- The decision tree: routing, extraction, evidence grounding
- Email processing pipeline (explicit success/failure results)
"""
