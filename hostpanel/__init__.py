"""Game/application hosting control panel with credit-metered servers."""
