"""Identity broker for the library platform.

HTTP front door that authenticates users and administers accounts and roles
by delegating to a Keycloak realm.
"""
