"""Per-member engagement: group memberships, attendance, volunteering and giving."""
