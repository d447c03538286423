import kopf
import kubernetes
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Any, List
from .aws.client import get_ec2_client
from .aws.security_group import EC2SecurityGroupManager
from .config import ControllerConfig, ConfigurationError
from .networking.errors import DuplicatePermissionError, ReconcileCancelled, ReconcileError, SecurityGroupNotFoundError
from .networking.ip_permission import (
    IPPermissionInfo,
    new_cidr_ip_permission,
    new_cidr_v6_ip_permission,
    new_group_id_ip_permission,
    new_prefix_list_ip_permission
)
from .networking.options import ReconcileOptions
from .networking.reconcile import ChangeSet
from .networking.selector import LabelSelector
from .networking.sg_reconciler import SecurityGroupReconciler
from .scheduler import ReconcileScheduler
from .webhook.server import start_webhook_server

logger = logging.getLogger(__name__)

# Constants
GROUP = "aws.k8s.io"
VERSION = "v1"
PLURAL = "securitygroupingresses"
OWNER_LABEL_KEY = "aws.k8s.io/securitygroupingress"
ERROR_RETRY_DELAY = 30  # seconds

PROTOCOLS = ('tcp', 'udp', 'icmp', 'icmpv6', '-1')
PORT_RANGE_PROTOCOLS = ('tcp', 'udp')

# Replaced with the environment-derived configuration on startup
config = ControllerConfig()
scheduler = ReconcileScheduler.from_config(config)
stop_event = threading.Event()

PEER_FIELDS = (
    ('ipRanges', new_cidr_ip_permission),
    ('ipv6Ranges', new_cidr_v6_ip_permission),
    ('securityGroups', new_group_id_ip_permission),
    ('prefixLists', new_prefix_list_ip_permission),
)

def owner_labels(namespace: str, name: str) -> Dict[str, str]:
    return {OWNER_LABEL_KEY: f"{namespace}/{name}"}

def build_ip_permissions(spec: Dict[str, Any], labels: Dict[str, str]) -> List[IPPermissionInfo]:
    """
    Build the desired ingress permissions of a SecurityGroupIngress.

    Each peer of each rule becomes its own permission, carrying labels.

    Args:
        spec: Spec of the SecurityGroupIngress
        labels: Ownership labels to attach to every permission

    Returns:
        List[IPPermissionInfo]: desired permissions

    Raises:
        ValueError: If a rule is invalid
    """
    permissions = []
    for i, rule in enumerate(spec.get('ingress') or []):
        protocol = str(rule.get('protocol', '')).lower()
        if protocol not in PROTOCOLS:
            raise ValueError(f"ingress[{i}]: invalid protocol {rule.get('protocol')}. Must be one of: {', '.join(PROTOCOLS)}")

        if protocol == '-1':
            from_port = to_port = None
        else:
            if 'fromPort' not in rule:
                raise ValueError(f"ingress[{i}]: fromPort is required for protocol {protocol}")
            try:
                from_port = int(rule['fromPort'])
                to_port = int(rule.get('toPort', from_port))
            except (TypeError, ValueError):
                raise ValueError(f"ingress[{i}]: fromPort and toPort must be integers")
            if protocol in PORT_RANGE_PROTOCOLS and not 0 <= from_port <= to_port <= 65535:
                raise ValueError(f"ingress[{i}]: invalid port range {from_port}-{to_port}")

        peer_count = 0
        for field_name, new_permission in PEER_FIELDS:
            for value in rule.get(field_name) or []:
                permissions.append(new_permission(protocol, from_port, to_port, value, labels))
                peer_count += 1
        if not peer_count:
            raise ValueError(f"ingress[{i}]: one of {', '.join(f for f, _ in PEER_FIELDS)} is required")

    return permissions

def reconcile_security_group_ingress(spec: Dict[str, Any], namespace: str, name: str,
                                     cancel_event: threading.Event = None, delete: bool = False) -> ChangeSet:
    """
    Run one reconcile pass for a SecurityGroupIngress.

    Only rules labelled as owned by this object are ever revoked, so rules
    from other objects or added by hand survive. With delete=True every
    owned rule is revoked. Callers serialize passes per security group.

    Raises:
        ValueError: If the spec is invalid
        ReconcileError: If the pass fails
    """
    sg_id = spec.get('securityGroupId')
    if not sg_id:
        raise ValueError("securityGroupId is required")

    labels = owner_labels(namespace, name)
    desired = [] if delete else build_ip_permissions(spec, labels)
    options = ReconcileOptions(permission_selector=LabelSelector(match_labels=labels))

    ec2 = get_ec2_client(region=spec.get('region') or config.cloud.region or None,
                         max_retries=config.cloud.max_retries)
    reconciler = SecurityGroupReconciler(EC2SecurityGroupManager(ec2))
    return reconciler.reconcile_ingress(sg_id, desired, options, cancel_event=cancel_event)

def build_status(sg_id: str, changes: ChangeSet) -> Dict[str, Any]:
    return {
        'securityGroupId': sg_id,
        'state': 'active',
        'revoked': len(changes.to_revoke),
        'granted': len(changes.to_grant),
        'lastReconcileTime': datetime.now(timezone.utc).isoformat(),
        'error': None
    }

def error_status(sg_id: str, error: Exception) -> Dict[str, Any]:
    """Status for a failed pass. A rule another owner already granted is reported as a conflict."""
    if isinstance(error, DuplicatePermissionError):
        return {
            'securityGroupId': sg_id,
            'state': 'conflict',
            'error': f"Ingress rule is already granted on {sg_id} by another owner: {str(error)}"
        }
    return {'securityGroupId': sg_id, 'state': 'error', 'error': str(error)}

def update_status(namespace: str, name: str, status: Dict[str, Any]) -> None:
    """Patch the status of a SecurityGroupIngress. Failures are logged, not raised."""
    try:
        api = kubernetes.client.CustomObjectsApi()
        api.patch_namespaced_custom_object_status(
            group=GROUP,
            version=VERSION,
            plural=PLURAL,
            namespace=namespace,
            name=name,
            body={'status': status}
        )
        logger.info(f"Successfully updated status for {namespace}/{name}")
    except Exception as e:
        logger.error(f"Failed to update status for {namespace}/{name}: {str(e)}", exc_info=True)

def _reconcile_object(spec: Dict[str, Any], meta: Dict[str, Any], logger: Any, delete: bool = False) -> ChangeSet:
    name = meta['name']
    namespace = meta['namespace']
    sg_id = spec.get('securityGroupId')

    try:
        if not sg_id:
            raise ValueError("securityGroupId is required")
        with scheduler.serialized(sg_id):
            return reconcile_security_group_ingress(spec, namespace, name, cancel_event=stop_event, delete=delete)
    except ValueError as e:
        if delete:
            logger.warning(f"Nothing to clean up for {namespace}/{name}: {str(e)}")
            return ChangeSet()
        logger.error(f"Invalid SecurityGroupIngress {namespace}/{name}: {str(e)}")
        update_status(namespace, name, {'state': 'error', 'error': str(e)})
        raise kopf.PermanentError(f"Invalid SecurityGroupIngress spec: {str(e)}")
    except ReconcileCancelled as e:
        logger.info(f"Reconcile of {namespace}/{name} cancelled: {str(e)}")
        raise kopf.TemporaryError(f"Reconcile cancelled: {str(e)}", delay=ERROR_RETRY_DELAY)
    except SecurityGroupNotFoundError as e:
        if delete:
            logger.info(f"Security group {sg_id} no longer exists, nothing to revoke for {namespace}/{name}")
            return ChangeSet()
        logger.error(f"Security group {sg_id} not found for {namespace}/{name}: {str(e)}")
        update_status(namespace, name, {'securityGroupId': sg_id, 'state': 'error', 'error': str(e)})
        raise kopf.TemporaryError(f"Security group {sg_id} not found", delay=ERROR_RETRY_DELAY)
    except ReconcileError as e:
        logger.error(f"Error reconciling security group {sg_id}: {str(e)}", exc_info=True)
        if not delete:
            update_status(namespace, name, error_status(sg_id, e))
        raise kopf.TemporaryError(f"Failed to reconcile security group {sg_id}: {str(e)}", delay=ERROR_RETRY_DELAY)

def resync_all() -> int:
    """
    Submit one reconcile pass per SecurityGroupIngress to the scheduler and
    wait for all of them.

    Returns:
        int: number of failed passes
    """
    api = kubernetes.client.CustomObjectsApi()
    resources = api.list_cluster_custom_object(group=GROUP, version=VERSION, plural=PLURAL)

    pending = []
    for item in resources.get('items', []):
        metadata = item['metadata']
        if metadata.get('deletionTimestamp'):
            continue
        spec = item.get('spec', {})
        sg_id = spec.get('securityGroupId')
        if not sg_id:
            logger.warning(f"Skipping {metadata.get('namespace')}/{metadata['name']} without securityGroupId")
            continue
        future = scheduler.submit(sg_id, reconcile_security_group_ingress, spec,
                                  metadata['namespace'], metadata['name'], cancel_event=stop_event)
        pending.append((future, metadata['namespace'], metadata['name'], sg_id))

    failures = 0
    for future, namespace, name, sg_id in pending:
        try:
            changes = future.result()
        except ReconcileCancelled:
            logger.info(f"Resync of {namespace}/{name} cancelled")
            continue
        except (ValueError, ReconcileError) as e:
            failures += 1
            logger.error(f"Resync of {namespace}/{name} failed: {str(e)}")
            update_status(namespace, name, error_status(sg_id, e))
            continue
        if not changes.empty:
            logger.info(f"Corrected drift on {sg_id} for {namespace}/{name}")
            update_status(namespace, name, build_status(sg_id, changes))
    return failures

def periodic_resync():
    """
    Periodically reconcile every SecurityGroupIngress to correct drift made
    outside of Kubernetes. The interval comes from RECONCILE_INTERVAL.
    """
    check_interval = config.reconcile_interval
    logger.info(f"Starting periodic resync with interval of {check_interval} seconds")

    # Load in-cluster configuration
    try:
        kubernetes.config.load_incluster_config()
    except kubernetes.config.ConfigException:
        # Fallback to kubeconfig for local development
        kubernetes.config.load_kube_config()

    while not stop_event.is_set():
        try:
            resync_all()
        except Exception as e:
            logger.error(f"Error in periodic resync: {str(e)}", exc_info=True)
        stop_event.wait(check_interval)

@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, logger, **kwargs):
    """Load configuration, size the worker pools and start background threads."""
    global config, scheduler

    try:
        loaded = ControllerConfig.from_env()
        loaded.validate()
    except ConfigurationError as e:
        logger.error(str(e))
        raise kopf.PermanentError(str(e))

    config = loaded
    logging.getLogger(__package__).setLevel(config.python_log_level)
    settings.execution.max_workers = config.max_concurrent_reconciles
    scheduler.shutdown(wait=False)
    scheduler = ReconcileScheduler.from_config(config)

    webhook_thread = threading.Thread(target=start_webhook_server, daemon=True)
    webhook_thread.start()
    logger.info("Started webhook server in background thread")

    resync_thread = threading.Thread(target=periodic_resync, daemon=True)
    resync_thread.start()
    logger.info("Started periodic resync thread")

@kopf.on.cleanup()
def cleanup_fn(logger, **kwargs):
    """Cancel in-flight passes and stop the resync loop."""
    logger.info("Stopping security group reconciliation")
    stop_event.set()
    scheduler.shutdown(wait=False)

@kopf.on.create(GROUP, VERSION, PLURAL)
@kopf.on.update(GROUP, VERSION, PLURAL)
@kopf.on.resume(GROUP, VERSION, PLURAL)
def reconcile_fn(spec: Dict[str, Any], meta: Dict[str, Any], status: Dict[str, Any], logger: Any, **kwargs) -> Dict[str, Any]:
    """
    Converge the security group ingress rules owned by a SecurityGroupIngress.
    """
    logger.info(f"Reconciling SecurityGroupIngress: {meta['namespace']}/{meta['name']}")

    # Release rules on the previous security group when the target moved
    old_spec = (kwargs.get('old') or {}).get('spec') or {}
    old_sg_id = old_spec.get('securityGroupId')
    if old_sg_id and old_sg_id != spec.get('securityGroupId'):
        logger.info(f"Security group changed from {old_sg_id}, revoking owned rules there")
        _reconcile_object(old_spec, meta, logger, delete=True)

    changes = _reconcile_object(spec, meta, logger)
    status_update = build_status(spec['securityGroupId'], changes)
    update_status(meta['namespace'], meta['name'], status_update)
    return status_update

@kopf.on.delete(GROUP, VERSION, PLURAL)
def delete_fn(spec: Dict[str, Any], meta: Dict[str, Any], status: Dict[str, Any], logger: Any, **kwargs):
    """
    Revoke every rule owned by a SecurityGroupIngress being deleted.
    """
    logger.info(f"Deleting SecurityGroupIngress: {meta['namespace']}/{meta['name']}")
    changes = _reconcile_object(spec, meta, logger, delete=True)
    logger.info(f"Revoked {len(changes.to_revoke)} ingress permissions for {meta['namespace']}/{meta['name']}")
