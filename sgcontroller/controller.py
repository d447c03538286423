"""
Entry point for the AWS security group ingress operator.

Run with: kopf run -m sgcontroller.controller --all-namespaces
"""

from . import handlers  # Importing registers all kopf handlers

# The handlers module wires the security group reconciler into kopf; the
# reconcile logic itself lives in the networking package.
