# Routes package init
"""
Snapcheck Backend — API Routes Package
========================================

Route Inventory:
    - accounts.py:  GET   /api/accounts/{slug}
                    GET   /api/accounts/by-id/{account_id}
                    GET   /api/teams/{account_id}
                    PATCH /api/accounts/{account_id}
                    POST  /api/accounts/{account_id}/terminate-trial
    - projects.py:  GET   /api/accounts/{slug}/projects
                    GET   /api/projects/{account_slug}/{project_name}/builds/{number}
    - health.py:    GET   /health

Routes stay thin: extract request data, resolve the caller, call a service.
"""
