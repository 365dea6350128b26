"""
Authentication app tests.

Modules:
- test_managers.py: UserManager account creation
- test_backends.py: JWT authentication that provisions unknown users
- test_services.py: registration, login and profile updates
- test_views.py: auth API endpoints
"""
