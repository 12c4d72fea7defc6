"""
Status ledger module.
Contains the ledger interface and its DynamoDB and SQL implementations.
"""

from parallelizer.ledger.base import StatusLedger
from parallelizer.ledger.dynamodb import DynamoDBStatusLedger
from parallelizer.ledger.repository import SqlStatusLedger

__all__ = [
    "StatusLedger",
    "DynamoDBStatusLedger",
    "SqlStatusLedger",
]
