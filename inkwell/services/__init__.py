"""
Inkwell Backend — Services Layer
==================================

Service Inventory:
    - LLMService (abstract): interface for completion providers
    - CompletionService: httpx client for the remote completion API
    - CreditLedger: balances, deductions, refunds, grants and their audit trail
    - AccountService: registration, login, profile
    - NoteService: owner-scoped note CRUD
    - NoteAIService: ownership → reservation → completion → persistence
"""
