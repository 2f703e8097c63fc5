"""auth/ -- Session tokens and service signatures for UserPortal.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or serverless/; accounts/ is imported for
type checking only. api/ imports from auth/, not the other way around.
"""
