"""Router package exports."""
from . import auth, commissions, partners

__all__ = [
	"auth",
	"commissions",
	"partners",
]
