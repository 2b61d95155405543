"""auth/ -- Credential verification and session lifecycle for DocDesk.

OTP and verification-token ledgers, the credential store, session token
issuance, the authorization guard, and the account service that composes them.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
