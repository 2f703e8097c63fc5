"""serverless/ -- The unattended caller that pulls the user list from the backend.

Layer rule: serverless/ imports only core/ and auth.signatures. It never
touches the account store or session tokens; its only credential is the
shared secret used to sign each request.
"""
