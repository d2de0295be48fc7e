"""SendGrid identity connector.

Reads teammates, subusers and teammate permission scopes from the SendGrid
administrative API, walking its offset and after-id pagination schemes, and
emits normalized resources, entitlements and grants for identity governance.
"""
