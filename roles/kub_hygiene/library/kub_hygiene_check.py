#!/usr/bin/python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT

"""One-shot Kubernetes manifest hygiene check for Ansible.

Validates a proposed, already-rendered manifest from the Ansible control
node, optionally against the live state of the target cluster. Nothing is
installed on any remote server and nothing is written to the cluster: all
API calls are read-only list operations.
"""

from __future__ import annotations

DOCUMENTATION = r"""
---
module: kub_hygiene_check
short_description: Check a Kubernetes manifest for configuration hygiene defects
version_added: "1.0.0"
description:
  - Parses a rendered multi-document manifest and runs the kub-hygiene
    reference, resource, security and networking checks against it.
  - With I(cluster=true) the manifest is overlaid on live cluster state so
    references to existing objects resolve.
  - Completely read-only. All API calls are list operations.
  - Fails when any error-severity finding or failed check remains after
    scope filtering.
options:
  manifest:
    description: Manifest text. Mutually exclusive with I(manifest_path).
    type: str
  manifest_path:
    description: Path to a manifest file on the control node.
    type: path
  kubeconfig:
    description: Path to the kubeconfig file.
    type: path
    default: ~/.kube/config
  context:
    description: Kubeconfig context to use. Defaults to current context.
    type: str
  scope:
    description:
      - C(file-only) reports findings about objects in the manifest only.
      - C(all) also reports findings about live objects.
    type: str
    default: file-only
    choices: [file-only, all]
  cluster:
    description: Validate against live cluster state. When false the manifest is validated alone.
    type: bool
    default: true
  checks:
    description: List of checks to run. Defaults to all.
    type: list
    elements: str
    default: [references, resources, security, networking]
  policy_required_namespaces:
    description: Namespaces that must carry at least one NetworkPolicy.
    type: list
    elements: str
    default: []
  qos_validation:
    description: Report containers whose requests and limits do not give Guaranteed QoS.
    type: bool
    default: false
requirements:
  - kub-hygiene (Python package, on the control node)
  - kubernetes (Python package, same requirement as kubernetes.core collection)
author:
  - kub-hygiene contributors
"""

EXAMPLES = r"""
- name: Validate a rendered chart against the current context
  kub_hygiene_check:
    manifest: "{{ lookup('pipe', 'helm template my-app ./chart') }}"
  register: hygiene

- name: Validate a file without touching any cluster
  kub_hygiene_check:
    manifest_path: build/my-app.yaml
    cluster: false

- name: Report only, never fail the play
  kub_hygiene_check:
    manifest_path: build/my-app.yaml
    scope: all
    checks:
      - networking
  register: hygiene
  failed_when: false
"""

RETURN = r"""
findings:
  description: Findings about in-scope objects.
  type: list
  returned: success
  elements: dict
  sample:
    - resource_type: "Service"
      resource_name: "web"
      namespace: "shop"
      validation_type: "service_port_mismatch"
      error_code: "HYG-NET-003"
      severity: "error"
      message: "Service port http (target: 9999) does not match any container port in matching pods"
failures:
  description: Checks that could not produce a trustworthy result.
  type: list
  returned: success
  elements: dict
summary:
  description: Counts by severity and by validation type.
  type: dict
  returned: success
  sample:
    scope: "file-only"
    subjects: 4
    total_findings: 2
    error_count: 1
    warning_count: 1
    info_count: 0
    rc: 2
report_text:
  description: Human-readable text report.
  type: str
  returned: success
rc:
  description: 0 when there are no error findings and no failed checks.
  type: int
  returned: success
"""


def run_module():
    from ansible.module_utils.basic import AnsibleModule

    module = AnsibleModule(
        argument_spec=dict(
            manifest=dict(type="str", default=None),
            manifest_path=dict(type="path", default=None),
            kubeconfig=dict(type="path", default="~/.kube/config"),
            context=dict(type="str", default=None),
            scope=dict(type="str", default="file-only", choices=["file-only", "all"]),
            cluster=dict(type="bool", default=True),
            checks=dict(
                type="list", elements="str",
                default=["references", "resources", "security", "networking"],
            ),
            policy_required_namespaces=dict(type="list", elements="str", default=[]),
            qos_validation=dict(type="bool", default=False),
        ),
        mutually_exclusive=[("manifest", "manifest_path")],
        required_one_of=[("manifest", "manifest_path")],
        supports_check_mode=True,
    )

    # Verify kub_hygiene and kubernetes packages are available
    try:
        from kub_hygiene.config import ALL_CHECKS, SharedConfig
        from kub_hygiene.errors import HygieneError, ManifestError
        from kub_hygiene.manifest import load_manifest, load_manifest_file
        from kub_hygiene.oneshot import generate_report_text, validate_manifest
        from kub_hygiene.provider import KubernetesProvider, connect
    except ImportError as e:
        module.fail_json(msg=f"The 'kub-hygiene' and 'kubernetes' Python packages are required: {e}")
        return

    params = module.params
    unknown = sorted(set(params["checks"]) - set(ALL_CHECKS))
    if unknown:
        module.fail_json(msg=f"Unknown checks: {', '.join(unknown)}")
        return

    # Parse manifest
    try:
        if params["manifest_path"]:
            manifest = load_manifest_file(params["manifest_path"])
        else:
            manifest = load_manifest(params["manifest"])
    except ManifestError as e:
        module.fail_json(msg=f"Failed to parse manifest: {e}")
        return

    # Connect to cluster
    live = None
    if params["cluster"]:
        try:
            live = KubernetesProvider(connect(params["kubeconfig"], params["context"]))
        except Exception as e:
            module.fail_json(msg=f"Failed to connect to Kubernetes cluster: {e}")
            return

    try:
        config = SharedConfig(
            policy_required_namespaces=frozenset(params["policy_required_namespaces"]),
            enable_qos_validation=params["qos_validation"],
        )
        result = validate_manifest(manifest, live=live, config=config,
                                   scope=params["scope"], checks=params["checks"])
    except HygieneError as e:
        module.fail_json(msg=f"Validation failed: {e}")
        return

    output = result.to_dict()
    rc = result.exit_code
    report_text = generate_report_text(result)

    if rc != 0:
        module.fail_json(
            msg=f"{result.error_count} error findings, {len(result.failures)} failed checks",
            rc=rc,
            summary=output["summary"],
            findings=output["findings"],
            failures=output["failures"],
            report_text=report_text,
        )
        return

    module.exit_json(
        changed=False,
        rc=rc,
        summary=output["summary"],
        findings=output["findings"],
        failures=output["failures"],
        report_text=report_text,
    )


def main():
    run_module()


if __name__ == "__main__":
    main()
