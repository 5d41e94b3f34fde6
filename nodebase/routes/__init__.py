# Routes package init
"""
NodeBase Backend: HTTP Routes
==============================

Route Inventory:
    - pages.py:   GET  /                 (users, server prefetch + hydration)
                  GET  /dashboard        (users through the direct caller)
    - auth.py:    GET|POST /login, GET|POST /signup, POST /logout
    - rpc.py:     GET|POST /api/trpc[/{procedures}]   (procedure bridge)
    - health.py:  GET  /health

Routes stay thin: they parse the request, call a procedure or service and
shape the response. Store access lives in services.
"""
