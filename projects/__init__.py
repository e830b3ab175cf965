"""projects/ -- Project and membership data for TaskGate.

Layer rule: projects/ may import from auth/ (for the access resolver and
failure taxonomy) and core/. auth/ never imports from projects/; the resolver
sees projects only through its MembershipSource protocol.
"""
