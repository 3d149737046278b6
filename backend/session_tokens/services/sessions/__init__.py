"""Token lifecycle engine: issue, validate, rotate and revoke sessions.

Import :class:`~session_tokens.services.sessions.service.SessionService` from
its module directly; this package stays import-light so the ports can depend
on :mod:`.dto` without cycles.
"""
