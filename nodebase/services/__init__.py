# Services package init
"""
NodeBase Backend: Services Layer
=================================

What:  Store access between procedures/routes and the database session.

Service Inventory:
    - UserService: list/get/create/authenticate users, with transient-error
      retries and StoreError wrapping
"""
