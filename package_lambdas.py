#!/usr/bin/env python3
"""
Package Lambda functions with the shared package and build the dependency layer.

Each function directory gets its own copy of goodbricks_shared. boto3 ships
with the Lambda runtime; python-ulid is installed into lambda_layer/python
so one layer serves every function.
"""
import os
import shutil
import subprocess
import sys
from pathlib import Path

# Lambda function directories
lambda_functions = [
    'lambda/audience_member_create',
    'lambda/audience_member_get',
    'lambda/audience_list_query',
    'lambda/audience_member_update',
    'lambda/audience_member_delete',
    'lambda/audience_import',
    'lambda/audience_campaigns_query',
    'lambda/audience_campaign_get',
    'lambda/audience_campaign_totals',
    'lambda/group_create',
    'lambda/group_list_query',
    'lambda/group_members_add',
    'lambda/group_member_remove',
    'lambda/group_audience_query',
    'lambda/group_campaigns_query',
    'lambda/member_groups_query',
    'lambda/org_create',
    'lambda/org_get',
    'lambda/campaign_create',
    'lambda/campaign_get',
    'lambda/campaign_list_query',
    'lambda/campaign_status_query',
    'lambda/campaign_update',
    'lambda/campaign_delete',
    'lambda/campaign_send',
    'lambda/email_send',
    'lambda/email_render',
    'lambda/layout_create',
    'lambda/layout_list_query',
]

shared_dir = 'lambda/goodbricks_shared'
layer_dir = 'lambda_layer/python'
layer_requirements = ['python-ulid>=2.2.0']

print("Packaging Lambda functions with shared code...\n")

for func_dir in lambda_functions:
    if not os.path.exists(os.path.join(func_dir, 'handler.py')):
        print(f"✗ {func_dir} has no handler.py")
        sys.exit(1)

    target_shared = os.path.join(func_dir, 'goodbricks_shared')

    # Remove existing copy if it exists
    if os.path.exists(target_shared):
        shutil.rmtree(target_shared)

    shutil.copytree(shared_dir, target_shared, ignore=shutil.ignore_patterns('__pycache__', '*.pyc', '.pytest_cache'))
    print(f"✓ Copied goodbricks_shared to {func_dir}")

print(f"\nBuilding dependency layer in {layer_dir}...")
os.makedirs(layer_dir, exist_ok=True)
result = subprocess.run(
    [sys.executable, '-m', 'pip', 'install', *layer_requirements, '-t', layer_dir, '--upgrade', '--no-cache-dir'],
    capture_output=True,
    text=True
)
if result.returncode != 0:
    print("✗ Failed to install layer dependencies")
    print(f"Error: {result.stderr}")
    sys.exit(1)

for pattern in ('__pycache__', '*.pyc', 'bin'):
    for item in Path(layer_dir).rglob(pattern):
        if item.is_dir():
            shutil.rmtree(item)
        elif item.exists():
            item.unlink()

print(f"✓ Installed {', '.join(layer_requirements)}")
print(f"\n✅ {len(lambda_functions)} Lambda functions packaged successfully!")
