"""Resource store access for the operator."""
