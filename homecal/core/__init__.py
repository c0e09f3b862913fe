"""Timezone resolution and environment configuration."""
