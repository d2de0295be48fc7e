"""Permission scopes that can be granted to a SendGrid teammate.

SendGrid does not expose an endpoint listing grantable scopes, so this
enumeration is the authority for which scope resources exist.
"""

from __future__ import annotations

_CRUD = ("create", "delete", "read", "update")

_CRUD_FAMILIES = (
    "alerts",
    "api_keys",
    "asm.groups",
    "categories",
    "design_library",
    "ips.pools",
    "ips.warmup",
    "mail_settings.address_whitelist",
    "mail_settings.bounce_purge",
    "mail_settings.footer",
    "mail_settings.forward_bounce",
    "mail_settings.forward_spam",
    "mail_settings.template",
    "marketing.automation",
    "marketing.contacts",
    "marketing.lists",
    "marketing.segments",
    "marketing.senders",
    "marketing.singlesends",
    "partner_settings.new_relic",
    "subusers",
    "suppression",
    "templates",
    "templates.versions",
    "tracking_settings.click",
    "tracking_settings.google_analytics",
    "tracking_settings.open",
    "tracking_settings.subscription",
    "user.webhooks.event.settings",
    "user.webhooks.parse.settings",
    "whitelabel",
)

_READ_ONLY = (
    "browsers.stats.read",
    "clients.stats.read",
    "devices.stats.read",
    "email_activity.read",
    "geo.stats.read",
    "mailbox_providers.stats.read",
    "messages.read",
    "stats.global.read",
    "stats.read",
    "user.account.read",
    "user.credits.read",
    "user.email.read",
    "user.profile.read",
    "user.timezone.read",
    "user.username.read",
)

_OTHER = (
    "billing.read",
    "billing.update",
    "mail.batch.create",
    "mail.batch.delete",
    "mail.batch.read",
    "mail.batch.update",
    "mail.send",
    "user.email.create",
    "user.email.delete",
    "user.email.update",
    "user.profile.update",
    "user.settings.enforced_tls.read",
    "user.settings.enforced_tls.update",
    "user.timezone.update",
    "user.username.update",
)

SENDGRID_SCOPES: tuple[str, ...] = tuple(sorted(
    {f"{family}.{verb}" for family in _CRUD_FAMILIES for verb in _CRUD}
    | set(_READ_ONLY)
    | set(_OTHER)
))

_KNOWN = frozenset(SENDGRID_SCOPES)


def is_known_scope(scope: str) -> bool:
    return scope in _KNOWN
