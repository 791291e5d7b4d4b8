"""Outbound SMS delivery."""

from bazaar.sms.service import SmsService

__all__ = ["SmsService"]
