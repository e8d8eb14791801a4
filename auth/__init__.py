"""auth/ -- Authentication and session lifecycle package for AuthCore.

Layer rule: auth/ imports stdlib, third-party libraries, and core/ (the
kernel: config and clock). It does NOT import from api/.
api/ and main.py import from auth/, not the other way around.
"""
