"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates


class RegisterSchema(Schema):
    """Input payload for account registration.

    The field rules are at least as strict as the ``User`` model validators,
    so anything accepted here can be persisted.
    """

    name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=8, max=128))

    @validates("name")
    def validate_name(self, value: str, **kwargs) -> None:
        if not value.strip():
            raise ValidationError("Name must not be blank.")

    @validates("email")
    def validate_email_domain(self, value: str, **kwargs) -> None:
        # fields.Email lets dotless hosts such as "localhost" through
        domain = value.rpartition("@")[2]
        if "." not in domain:
            raise ValidationError("Email domain must contain a dot.")


class LoginSchema(Schema):
    """Input payload for authenticating a user."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    # No length rule here: a short password must fail as bad credentials.
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class RefreshSchema(Schema):
    """Input payload carrying an opaque refresh token."""

    refresh_token = fields.String(required=True, validate=validate.Length(min=1, max=128))


class LogoutSchema(Schema):
    """Optional logout body; identifies the user when the bearer has expired."""

    refresh_token = fields.String(load_default=None, validate=validate.Length(min=1, max=128))


class TokenResponseSchema(Schema):
    """Token pair returned by register, login and refresh."""

    access_token = fields.String(required=True)
    refresh_token = fields.String(required=True)
    expires_in = fields.Integer(required=True)
    token_type = fields.String(dump_default="Bearer")


class WhoAmISchema(Schema):
    """Identity details for the authenticated user."""

    id = fields.Integer(required=True)
    name = fields.String(required=True)
    email = fields.Email(required=True)
