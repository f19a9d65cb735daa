"""
Feature modules for the BeProductive session client.

- auth: Identity backend adapters (cloud Supabase, self-hosted stack)
- guest: Offline demo personas and their persisted selection
- diagnostics: Environment probes run after terminal auth failures
- session: The coordinator that owns the authentication lifecycle

Modules communicate through interfaces, not concrete implementations.
"""
