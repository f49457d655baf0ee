"""
TenantNotes Backend — API Routes Package
=========================================

Route Inventory:
    - notes.py:    POST/GET        /api/notes
                   GET/PUT/DELETE  /api/notes/{id}
    - tenants.py:  GET   /api/tenants/me
                   POST  /api/tenants/{slug}/upgrade
                   GET   /api/users
                   POST  /api/users/invite
    - health.py:   GET   /health

Routes are thin: resolve the Principal, call a service, shape the response.
"""
