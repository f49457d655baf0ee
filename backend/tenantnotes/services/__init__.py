"""
TenantNotes Backend — Services Layer
=====================================

Service Inventory:
    - access_guard:   authorize / enforce / scope_query (pure policy, no I/O)
    - TenantService:  provisioning, atomic plan-limit accounting, upgrades, invitations
    - NoteService:    tenant-scoped note CRUD

NoteService and TenantService are the only modules that touch tenant-owned
tables, and they do so only through access_guard.
"""
