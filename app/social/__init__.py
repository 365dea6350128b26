"""
Social graph app: friend requests and the symmetric friend set.

Friend sets themselves live on authentication.User.friends; this app owns
the request state machine and every mutation of those sets.
"""
