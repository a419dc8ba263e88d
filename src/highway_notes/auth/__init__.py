"""Authentication and authorization.

Two ways in, one way through:
1. Email → one-time code → session JWT
2. Google OAuth → federated identity bound to a local user → session JWT

Every protected route then runs the same bearer-token guard
(dependencies.get_current_user).
"""
