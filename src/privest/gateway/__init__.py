"""Submission gateway between the computation network and the payout ledger."""

from privest.gateway.submission import ResultSubmissionGateway, SubmissionResult

__all__ = ["ResultSubmissionGateway", "SubmissionResult"]
