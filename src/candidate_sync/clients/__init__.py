"""
Clients for the relational store and the CRM API.
"""

from .crm_client import CRMClient
from .postgres_client import PostgresClient

__all__ = ['CRMClient', 'PostgresClient']
