"""Highway Notes — note-taking backend with email OTP and Google sign-in.

Users sign up or log in with a one-time code sent to their email (or with
Google), receive a bearer token, and manage their own notes.
"""

__version__ = "0.1.0"
