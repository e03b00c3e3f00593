"""
Role-based access control utilities
"""
from fastapi import HTTPException

# Roles issued by the portal's identity provider
ADMIN = "ADMIN"
SUPPLIER = "SUPPLIER"

ROLES = {
    ADMIN: 100,     # Publishes tenders, evaluates, awards, decides carnival bids
    SUPPLIER: 20,   # Submits tender and carnival bids
}


def is_admin(caller) -> bool:
    return caller.role == ADMIN


def require_admin(caller):
    if not is_admin(caller):
        raise HTTPException(status_code=403, detail="Access denied. Admins only.")


def can_submit_bid(caller) -> bool:
    """Suppliers need a supplier profile to bid"""
    return caller.role == SUPPLIER and caller.supplier_id is not None


def require_bidder(caller):
    if not can_submit_bid(caller):
        raise HTTPException(
            status_code=403,
            detail="Only suppliers with a supplier profile can submit bids"
        )


def can_view_supplier(caller, supplier_id) -> bool:
    """Admins see every supplier's bids; suppliers only their own"""
    if is_admin(caller):
        return True
    return caller.supplier_id is not None and caller.supplier_id == supplier_id
