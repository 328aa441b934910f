"""grounded - backend for the Grounded productivity app."""
