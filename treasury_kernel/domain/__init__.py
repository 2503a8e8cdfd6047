"""Pure domain core: values, policies, split arithmetic, risk scoring, ports."""
