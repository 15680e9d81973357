"""
Rental Modules.

Thin orchestration layers over the Rental Kernel.
Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas (module settings)
- A service facade that returns mutation batches

Modules:
- Agreements: Rental agreements, numbering, recurring rent, invoice generation
"""

from rental_modules import agreements

__all__ = ["agreements"]
