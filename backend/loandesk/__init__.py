"""LoanDesk quotation and loan operations backend."""
