"""Certificate and DNS records for the application domain."""
import logging
import time
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from deployment.aws.utils.aws_clients import get_acm_client, get_route53_client
from deployment.exceptions import DeploymentError
from deployment.settings import Settings, get_settings

logger = logging.getLogger(__name__)

REUSABLE_CERTIFICATE_STATUSES = ('ISSUED', 'PENDING_VALIDATION')

# ACM fills in validation records a few seconds after the request
RECORD_POLL_DELAY = 5
RECORD_POLL_ATTEMPTS = 12


class DomainManager:
    """Binds ``DOMAIN_NAME`` to the load balancer and issues its certificate."""

    def __init__(self, settings: Optional[Settings] = None, acm_client=None, route53_client=None,
                 record_poll_delay: float = RECORD_POLL_DELAY,
                 record_poll_attempts: int = RECORD_POLL_ATTEMPTS):
        self.settings = settings or get_settings()
        self.acm_client = acm_client or get_acm_client()
        self.route53_client = route53_client or get_route53_client()
        self.domain_name = self.settings.domain_name
        self.hosted_zone_id = self.settings.hosted_zone_id
        self.record_poll_delay = record_poll_delay
        self.record_poll_attempts = record_poll_attempts

    def find_certificate(self) -> Optional[str]:
        """ARN of an issued or pending certificate for the domain, if any."""
        paginator = self.acm_client.get_paginator('list_certificates')
        for page in paginator.paginate(CertificateStatuses=list(REUSABLE_CERTIFICATE_STATUSES)):
            for summary in page.get('CertificateSummaryList', []):
                if summary.get('DomainName') == self.domain_name:
                    return summary['CertificateArn']
        return None

    def _describe_with_validation_records(self, certificate_arn: str) -> Dict[str, Any]:
        """Describe the certificate, polling until ACM has filled in every validation record."""
        for attempt in range(1, self.record_poll_attempts + 1):
            details = self.acm_client.describe_certificate(CertificateArn=certificate_arn)['Certificate']
            if details.get('Status') != 'PENDING_VALIDATION':
                return details
            options = details.get('DomainValidationOptions', [])
            if options and all(option.get('ResourceRecord') for option in options):
                return details
            logger.info(f"⏳ Validation records not ready yet ({attempt}/{self.record_poll_attempts})")
            if attempt < self.record_poll_attempts:
                time.sleep(self.record_poll_delay)

        raise DeploymentError(f"ACM did not publish validation records for {certificate_arn}")

    def ensure_certificate(self) -> str:
        """Reuse or request a DNS-validated certificate and publish its validation record."""
        certificate_arn = self.find_certificate()
        if certificate_arn:
            logger.info(f"Using existing certificate: {certificate_arn}")
        else:
            response = self.acm_client.request_certificate(
                DomainName=self.domain_name,
                SubjectAlternativeNames=[f"www.{self.domain_name}"],
                ValidationMethod='DNS',
                Tags=[{'Key': 'Project', 'Value': self.settings.app_name}]
            )
            certificate_arn = response['CertificateArn']
            logger.info(f"Requested certificate: {certificate_arn}")

        details = self._describe_with_validation_records(certificate_arn)
        if details.get('Status') == 'PENDING_VALIDATION':
            for option in details['DomainValidationOptions']:
                record = option['ResourceRecord']
                self._upsert_record({
                    'Name': record['Name'],
                    'Type': record['Type'],
                    'TTL': 300,
                    'ResourceRecords': [{'Value': record['Value']}]
                })
        return certificate_arn

    def wait_for_certificate(self, certificate_arn: str, delay: int = 30, max_attempts: int = 40) -> None:
        logger.info(f"⏳ Waiting for certificate validation: {certificate_arn}")
        self.acm_client.get_waiter('certificate_validated').wait(
            CertificateArn=certificate_arn,
            WaiterConfig={'Delay': delay, 'MaxAttempts': max_attempts}
        )
        logger.info("✅ Certificate issued")

    def point_domain_at_load_balancer(self) -> Dict[str, Any]:
        """UPSERT an alias A record for the domain targeting the load balancer."""
        record = {
            'Name': self.domain_name,
            'Type': 'A',
            'AliasTarget': {
                'HostedZoneId': self.settings.load_balancer_zone_id,
                'DNSName': self.settings.load_balancer_dns_name,
                'EvaluateTargetHealth': True
            }
        }
        self._upsert_record(record)
        logger.info(f"✅ {self.domain_name} → {self.settings.load_balancer_dns_name}")
        return record

    def _upsert_record(self, record_set: Dict[str, Any]) -> None:
        try:
            self.route53_client.change_resource_record_sets(
                HostedZoneId=self.hosted_zone_id,
                ChangeBatch={
                    'Comment': f"{self.settings.app_name} deployment",
                    'Changes': [{'Action': 'UPSERT', 'ResourceRecordSet': record_set}]
                }
            )
            logger.info(f"Upserted {record_set['Type']} record: {record_set['Name']}")
        except ClientError as e:
            logger.error(f"Failed to upsert {record_set['Name']}: {e}")
            raise

    def expose(self, wait: bool = False) -> Dict[str, Any]:
        self.settings.require('domain_name', 'hosted_zone_id',
                              'load_balancer_dns_name', 'load_balancer_zone_id')
        certificate_arn = self.ensure_certificate()
        if wait:
            self.wait_for_certificate(certificate_arn)
        self.point_domain_at_load_balancer()
        return {
            "domain": self.domain_name,
            "certificate_arn": certificate_arn,
            "url": f"https://{self.domain_name}/",
        }
