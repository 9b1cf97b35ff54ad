"""
Zenio - Conversational Finance Engine

Turns free-text chat messages into validated changes on a user's
financial records (transactions, budgets, goals) by delegating the
reasoning to an external assistant and executing the tool calls it
requests.

DESIGN PRINCIPLES:
1. The assistant requests, the engine validates and executes
2. Never guess which record the user meant
3. Category mismatches are conversation, not crashes
4. Every external wait is bounded
5. Storage and the reasoning service are swappable
"""

__version__ = "1.0.0"
__author__ = "Zenio Team"
