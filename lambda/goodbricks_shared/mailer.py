"""
SES wrapper.

Covers the template registry, bulk templated sends and single sends. Errors
from SES propagate as botocore ClientError; callers decide which of them are
per-recipient failures.
"""

import json
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from botocore.exceptions import ClientError


# SendBulkTemplatedEmail accepts at most 50 destinations per call
MAX_BULK_DESTINATIONS = 50

# SES errors caused by the request rather than by the service
CLIENT_SIDE_SES_ERRORS = (
    'MessageRejected',
    'MailFromDomainNotVerifiedException',
    'ConfigurationSetDoesNotExist',
)


class TemplateSaveResult(NamedTuple):
    created: bool
    updated: bool


def error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def format_source(from_email: str, from_name: Optional[str] = None) -> str:
    return f'{from_name} <{from_email}>' if from_name else from_email


class Mailer:
    """Sends campaign and transactional email through SES."""

    def __init__(self, ses: Any):
        self.ses = ses

    def get_template(self, template_name: str) -> Optional[Dict[str, Any]]:
        try:
            return self.ses.get_template(TemplateName=template_name)['Template']
        except ClientError as error:
            if error_code(error) == 'TemplateDoesNotExist':
                return None
            raise

    def create_template(self, template_name: str, subject: str, html: str, text: Optional[str] = None) -> None:
        self.ses.create_template(Template=self._template(template_name, subject, html, text))

    def update_template(self, template_name: str, subject: str, html: str, text: Optional[str] = None) -> None:
        self.ses.update_template(Template=self._template(template_name, subject, html, text))

    def create_or_update_template(
        self,
        template_name: str,
        subject: str,
        html: str,
        text: Optional[str] = None
    ) -> TemplateSaveResult:
        """Register a template, replacing it when the name is already taken."""
        if self.get_template(template_name) is None:
            self.create_template(template_name, subject, html, text)
            return TemplateSaveResult(created=True, updated=False)
        self.update_template(template_name, subject, html, text)
        return TemplateSaveResult(created=False, updated=True)

    def send_bulk_templated_email(
        self,
        source: str,
        template_name: str,
        destinations: Sequence[Dict[str, Any]],
        default_data: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Send one templated email per destination.

        Args:
            source: Formatted sender address
            template_name: Registered SES template
            destinations: Up to 50 {'email', 'data'} dicts
            default_data: Template data used when a destination lacks a value

        Returns:
            One SES status dict per destination, in order
        """
        if len(destinations) > MAX_BULK_DESTINATIONS:
            raise ValueError(f'At most {MAX_BULK_DESTINATIONS} destinations per bulk send')

        response = self.ses.send_bulk_templated_email(
            Source=source,
            Template=template_name,
            DefaultTemplateData=json.dumps(default_data or {}, default=str),
            Destinations=[
                {
                    'Destination': {'ToAddresses': [destination['email']]},
                    'ReplacementTemplateData': json.dumps(destination.get('data') or {}, default=str)
                }
                for destination in destinations
            ]
        )
        return response.get('Status', [])

    def send_email(
        self,
        source: str,
        to_addresses: Sequence[str],
        subject: str,
        html: Optional[str] = None,
        text: Optional[str] = None,
        cc_addresses: Optional[Sequence[str]] = None,
        bcc_addresses: Optional[Sequence[str]] = None,
        reply_to: Optional[Sequence[str]] = None,
        tags: Optional[Sequence[Dict[str, str]]] = None,
        configuration_set: Optional[str] = None
    ) -> str:
        """
        Send a single email.

        Returns:
            The SES MessageId
        """
        body: Dict[str, Any] = {}
        if html:
            body['Html'] = {'Data': html, 'Charset': 'UTF-8'}
        if text:
            body['Text'] = {'Data': text, 'Charset': 'UTF-8'}

        destination: Dict[str, Any] = {'ToAddresses': list(to_addresses)}
        if cc_addresses:
            destination['CcAddresses'] = list(cc_addresses)
        if bcc_addresses:
            destination['BccAddresses'] = list(bcc_addresses)

        params: Dict[str, Any] = {
            'Source': source,
            'Destination': destination,
            'Message': {
                'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                'Body': body
            }
        }
        if reply_to:
            params['ReplyToAddresses'] = list(reply_to)
        if tags:
            params['Tags'] = [{'Name': tag['name'], 'Value': tag['value']} for tag in tags]
        if configuration_set:
            params['ConfigurationSetName'] = configuration_set

        return self.ses.send_email(**params)['MessageId']

    @staticmethod
    def _template(template_name: str, subject: str, html: str, text: Optional[str]) -> Dict[str, str]:
        template = {
            'TemplateName': template_name,
            'SubjectPart': subject,
            'HtmlPart': html
        }
        if text:
            template['TextPart'] = text
        return template
