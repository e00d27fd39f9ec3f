#!/usr/bin/env python3
"""
Seed schema configurations from a YAML file.

Stores the global field set plus every tenant override as the active version
for its scope. Re-running with the same version updates the rows in place.

Usage:
    python scripts/seed_schema_configs.py                     # bundled demo configs
    python scripts/seed_schema_configs.py path/to/configs.yaml
    python scripts/seed_schema_configs.py --check             # resolve only, write nothing

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import os
import sys
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from siteiq.database import init_db
from siteiq.pipeline.schema import resolve_schema
from siteiq.services.schema_configs import ConfigStore, load_config_file

DEFAULT_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                            'siteiq', 'data', 'schema_configs.yaml')


def check(doc):
    """Resolve every tenant against the global config; raises on the first bad one."""
    resolve_schema(doc['global'])
    print('  global: ok')
    for tenant_id, override in doc['tenants'].items():
        schema = resolve_schema(doc['global'], override)
        print(f'  {tenant_id}: ok ({len(schema.fields)} fields)')


def seed(doc, store):
    version = doc['version']
    store.save_config(None, version, doc['global'], description='Global default schema')
    print(f'  global: version {version}')
    for tenant_id, override in doc['tenants'].items():
        store.save_config(tenant_id, version, override, description='Tenant override')
        print(f'  {tenant_id}: version {version}')


def main():
    parser = argparse.ArgumentParser(description='Seed schema configurations')
    parser.add_argument('path', nargs='?', default=DEFAULT_PATH, help='YAML file with global + tenant configs')
    parser.add_argument('--check', action='store_true', help='Only validate that every config resolves')
    args = parser.parse_args()

    doc = load_config_file(args.path)

    print(f'Resolving configs from {args.path}...')
    check(doc)
    if args.check:
        return

    # Ensure tables exist (for SQLite local dev)
    init_db()

    print('Seeding schema configs...')
    seed(doc, ConfigStore())
    print('\nDone!')


if __name__ == '__main__':
    main()
