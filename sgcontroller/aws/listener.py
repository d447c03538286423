from dataclasses import dataclass
from typing import Any, List
import logging
import threading
from botocore.exceptions import ClientError
from .client import retry_aws_operation
from ..networking.errors import FetchError, GrantError, RevokeError
from ..networking.reconcile import ChangeSet, apply_changes, compute_changes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateInfo:
    certificate_arn: str
    is_default: bool = False


def compare_certificate(a: CertificateInfo, b: CertificateInfo) -> bool:
    return a.certificate_arn == b.certificate_arn


class ListenerCertificateManager:
    """Reads and mutates the certificate list of ELBv2 listeners."""

    def __init__(self, elbv2: Any):
        self.elbv2 = elbv2

    def fetch_certificates(self, listener_arn: str, cancel_event: threading.Event = None) -> List[CertificateInfo]:
        """
        Get all certificates attached to a listener, following pagination.

        Args:
            listener_arn: ARN of the listener
            cancel_event: Aborts retries when set

        Returns:
            List[CertificateInfo]: attached certificates, default one included

        Raises:
            FetchError: If the certificates cannot be described
        """
        certificates = []
        params = {'ListenerArn': listener_arn}
        try:
            while True:
                response = retry_aws_operation(
                    self.elbv2.describe_listener_certificates,
                    cancel_event=cancel_event,
                    resource_id=listener_arn,
                    **params
                )
                for cert in response.get('Certificates', []):
                    certificates.append(CertificateInfo(
                        certificate_arn=cert['CertificateArn'],
                        is_default=cert.get('IsDefault', False)
                    ))
                next_marker = response.get('NextMarker')
                if not next_marker:
                    break
                params['Marker'] = next_marker
        except ClientError as e:
            logger.error(f"Error getting certificates for listener {listener_arn}: {str(e)}")
            raise FetchError(f"Error getting certificates for listener {listener_arn}: {str(e)}", listener_arn) from e
        return certificates

    def add_certificates(self, listener_arn: str, certificates: List[CertificateInfo],
                         cancel_event: threading.Event = None) -> None:
        try:
            retry_aws_operation(
                self.elbv2.add_listener_certificates,
                ListenerArn=listener_arn,
                Certificates=[{'CertificateArn': c.certificate_arn} for c in certificates],
                cancel_event=cancel_event,
                resource_id=listener_arn
            )
            logger.info(f"Added {len(certificates)} certificates to listener {listener_arn}")
        except ClientError as e:
            logger.error(f"Error adding certificates to listener {listener_arn}: {str(e)}")
            raise GrantError(f"Error adding certificates to listener {listener_arn}: {str(e)}", listener_arn) from e

    def remove_certificates(self, listener_arn: str, certificates: List[CertificateInfo],
                            cancel_event: threading.Event = None) -> None:
        try:
            retry_aws_operation(
                self.elbv2.remove_listener_certificates,
                ListenerArn=listener_arn,
                Certificates=[{'CertificateArn': c.certificate_arn} for c in certificates],
                cancel_event=cancel_event,
                resource_id=listener_arn
            )
            logger.info(f"Removed {len(certificates)} certificates from listener {listener_arn}")
        except ClientError as e:
            logger.error(f"Error removing certificates from listener {listener_arn}: {str(e)}")
            raise RevokeError(f"Error removing certificates from listener {listener_arn}: {str(e)}", listener_arn) from e


def reconcile_listener_certificates(manager: ListenerCertificateManager, listener_arn: str,
                                    desired_certificate_arns: List[str],
                                    cancel_event: threading.Event = None) -> ChangeSet:
    """
    Reconcile the extra certificates of a listener to be desired_certificate_arns.

    The default certificate is set through the listener itself and is never
    removed here.
    """
    observed = manager.fetch_certificates(listener_arn, cancel_event=cancel_event)
    desired = [CertificateInfo(certificate_arn=arn) for arn in dict.fromkeys(desired_certificate_arns)]
    changes = compute_changes(observed, desired, compare_certificate, selects=lambda cert: not cert.is_default)
    apply_changes(
        listener_arn,
        changes,
        revoke=lambda certs: manager.remove_certificates(listener_arn, certs, cancel_event=cancel_event),
        grant=lambda certs: manager.add_certificates(listener_arn, certs, cancel_event=cancel_event),
        cancel_event=cancel_event,
    )
    return changes
