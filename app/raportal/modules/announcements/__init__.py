"""Announcements targeted at everyone, one association, or a set of roles."""
