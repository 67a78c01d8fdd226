"""Rate agreements for Care Fayre.

Models:
- Contract: The bilateral rate agreement gating a job
- SignatureState: unsigned, customer_signed, agency_signed, fully_signed
- AgreementDetails: Values quoted in the agreement text

Service:
- ContractService: Signing
- render_agreement: Deterministic agreement text
"""

from carefayre.contracts.agreement import STANDARD_TERMS, AgreementDetails, render_agreement
from carefayre.contracts.models import Contract, SignatureState
from carefayre.contracts.service import ContractService

__all__ = [
    # Models
    "Contract",
    "SignatureState",
    "AgreementDetails",
    "STANDARD_TERMS",
    # Service
    "ContractService",
    "render_agreement",
]
