"""Lead Nurture backend."""
