import os
import logging
from typing import Any, Dict, List, Optional
from flask import Flask, request, jsonify
import base64
import json

logger = logging.getLogger(__name__)

MANAGED_BY_LABELS = {
    "managed-by": "aws-securitygroup-controller",
    "created-by": "aws-securitygroup-operator"
}
DEFAULT_CERT_PATH = '/etc/webhook/certs/tls.crt'
DEFAULT_KEY_PATH = '/etc/webhook/certs/tls.key'
DEFAULT_WEBHOOK_PORT = 8443

app = Flask(__name__)

def admission_review(uid: str, allowed: bool, patch: Optional[List[Dict[str, Any]]] = None,
                     message: Optional[str] = None) -> dict:
    """Wrap an admission decision in an AdmissionReview, encoding patch as base64 JSONPatch."""
    response = {"uid": uid, "allowed": allowed}
    if patch:
        response["patchType"] = "JSONPatch"
        response["patch"] = base64.b64encode(json.dumps(patch).encode()).decode()
    if message:
        response["status"] = {"message": message}
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "response": response
    }

def create_error_response(message: str, uid: str = "") -> dict:
    return admission_review(uid, False, message=message)

def start_webhook_server():
    """Serve the webhook over TLS. Certificate paths and port come from the environment."""
    cert_path = os.environ.get('CERT_PATH', DEFAULT_CERT_PATH)
    key_path = os.environ.get('KEY_PATH', DEFAULT_KEY_PATH)
    if not (os.path.exists(cert_path) and os.path.exists(key_path)):
        logger.error(f"Webhook TLS material missing: {cert_path}, {key_path}")
        raise FileNotFoundError("SSL certificate or key not found")

    port = int(os.environ.get('WEBHOOK_PORT', DEFAULT_WEBHOOK_PORT))
    logger.info(f"Starting webhook server on port {port}")
    app.run(host='0.0.0.0', port=port, ssl_context=(cert_path, key_path), threaded=True)

def default_ingress_rules(rules: list) -> list:
    """
    Normalize ingress rules of a SecurityGroupIngress.

    Protocols are lowercased as EC2 reports them and toPort defaults to fromPort.
    """
    defaulted = []
    for rule in rules:
        rule = dict(rule)
        if isinstance(rule.get("protocol"), str):
            rule["protocol"] = rule["protocol"].lower()
        if "fromPort" in rule and "toPort" not in rule:
            rule["toPort"] = rule["fromPort"]
        defaulted.append(rule)
    return defaulted

def build_patch(sg_ingress: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    JSONPatch operations for a SecurityGroupIngress: managed-by labels are
    always set, ingress is replaced only when defaulting changed it.
    """
    labels = dict(sg_ingress.get("metadata", {}).get("labels") or {})
    labels.update(MANAGED_BY_LABELS)
    patch = [{"op": "add", "path": "/metadata/labels", "value": labels}]

    rules = sg_ingress.get("spec", {}).get("ingress")
    if rules:
        defaulted = default_ingress_rules(rules)
        if defaulted != rules:
            patch.append({"op": "replace", "path": "/spec/ingress", "value": defaulted})
    return patch

@app.route('/health', methods=['GET'])
def health_check():
    return jsonify({"status": "healthy"}), 200

@app.route('/mutate', methods=['POST'])
def mutate():
    """Handle mutation requests for SecurityGroupIngress resources."""
    review = request.get_json(silent=True)
    if not review:
        logger.warning("Received empty request body")
        return jsonify(create_error_response("No request body"))

    request_data = review.get("request")
    if not request_data:
        logger.warning("No request data in admission review")
        return jsonify(create_error_response("No request data"))

    uid = request_data.get("uid", "")
    try:
        sg_ingress = request_data["object"]
        patch = build_patch(sg_ingress)
    except (KeyError, TypeError, AttributeError) as e:
        error_msg = f"Malformed SecurityGroupIngress in request: {str(e)}"
        logger.error(error_msg)
        return jsonify(create_error_response(error_msg, uid))

    name = sg_ingress.get("metadata", {}).get("name", "unknown")
    logger.info(f"Mutated SecurityGroupIngress {name} with {len(patch)} patch operations")
    return jsonify(admission_review(uid, True, patch=patch))
