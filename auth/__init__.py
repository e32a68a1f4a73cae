"""auth/ -- Identity and access control for PropertyDesk.

Components, leaves first:
  CredentialStore        user records + password verification   (credentials.py, store.py)
  VerificationCodeStore  single-use, time-boxed email codes     (codes.py)
  AdminWhitelist         emails allowed into the back office    (whitelist.py)
  TokenService           stateless signed bearer tokens         (tokens.py)
  AuthorizationGate      per-request whitelist elevation check  (gate.py)

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/.
api/ imports from auth/, not the other way around.
"""
