"""Payment webhook account provisioner.

Receives Stripe checkout notifications and provisions a Cognito account
plus a subscription record for the paying customer.
"""

__version__ = "0.1.0"
