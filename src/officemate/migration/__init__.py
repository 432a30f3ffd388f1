"""Legacy data migration."""

from officemate.migration.mongo import LegacyUserImporter, MigrationReport

__all__ = ["LegacyUserImporter", "MigrationReport"]
