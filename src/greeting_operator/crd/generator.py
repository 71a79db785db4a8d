"""CRD generation from the registered pydantic models."""

import hashlib
import json
import logging
from pathlib import Path
import yaml

from .registry import CRDRegistry

logger = logging.getLogger(__name__)


class OpenAPIConverter:
    """Convert pydantic schemas to OpenAPI v3 compatible schemas for CRDs."""

    @staticmethod
    def convert_schema(pydantic_schema):
        """Convert pydantic JSON schema to OpenAPI v3 schema for Kubernetes CRDs."""
        openapi_schema = {"type": "object", "properties": {}}

        if "properties" in pydantic_schema:
            openapi_schema["properties"] = OpenAPIConverter._convert_properties(
                pydantic_schema["properties"], pydantic_schema.get("$defs", {})
            )

        if "required" in pydantic_schema:
            openapi_schema["required"] = pydantic_schema["required"]

        return openapi_schema

    @staticmethod
    def _convert_properties(properties, property_defs):
        """Convert properties recursively."""
        converted = {}

        for prop_name, prop_schema in properties.items():
            converted[prop_name] = OpenAPIConverter._convert_property(
                prop_schema, property_defs
            )

        return converted

    @staticmethod
    def _convert_property(prop_schema, defs):
        """Convert a single property schema."""
        if "$ref" in prop_schema:
            ref_path = prop_schema["$ref"]
            if ref_path.startswith("#/$defs/"):
                def_name = ref_path.replace("#/$defs/", "")
                if def_name in defs:
                    return OpenAPIConverter._convert_property(defs[def_name], defs)

        # Optional[X] comes through as anyOf [X, null]
        if "anyOf" in prop_schema:
            variants = [v for v in prop_schema["anyOf"] if v.get("type") != "null"]
            if len(variants) == 1:
                merged = {k: v for k, v in prop_schema.items() if k != "anyOf"}
                merged.update(variants[0])
                result = OpenAPIConverter._convert_property(merged, defs)
                if len(variants) != len(prop_schema["anyOf"]):
                    result["nullable"] = True
                if result.get("default", "") is None:
                    del result["default"]
                return result

        if prop_schema.get("type") == "array":
            converted = {"type": "array"}
            if "items" in prop_schema:
                converted["items"] = OpenAPIConverter._convert_property(
                    prop_schema["items"], defs
                )
            return converted

        if prop_schema.get("type") == "object":
            converted = {"type": "object"}
            if "properties" in prop_schema:
                converted["properties"] = OpenAPIConverter._convert_properties(
                    prop_schema["properties"], defs
                )
            if "required" in prop_schema:
                converted["required"] = prop_schema["required"]
            converted["additionalProperties"] = True
            return converted

        result = {}
        for key in (
            "type",
            "description",
            "default",
            "enum",
            "minimum",
            "maximum",
            "minLength",
            "maxLength",
            "pattern",
        ):
            if key in prop_schema:
                result[key] = prop_schema[key]

        if not result.get("type"):
            result["type"] = "object"
            result["additionalProperties"] = True

        return result


class GreetingCRDManager:
    """Generates, validates and applies the operator's CRDs."""

    def __init__(self, output_dir=None, registry=None):
        self.output_dir = Path(output_dir) if output_dir else Path("crds/generated")
        self.registry = registry or CRDRegistry()
        self.converter = OpenAPIConverter()

    def generate_all_crds(self, force=False):
        """Generate CRDs only if models changed.

        Returns:
            bool: True if CRDs were generated/updated, False if no changes needed
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        current_hash = self._calculate_models_hash()
        hash_file = self.output_dir / ".models_hash"

        if not force and hash_file.exists():
            stored_hash = hash_file.read_text().strip()
            if stored_hash == current_hash:
                logger.info("CRD models unchanged, skipping generation")
                return False

        logger.info("Generating CRDs from pydantic models...")

        models = self.registry.get_all_models()
        if not models:
            logger.warning("No CRD models found to generate")
            return False

        generated_files = []

        for model_key, model_info in models.items():
            try:
                crd_def = self.generate_crd_definition(model_info)
            except ValueError as e:
                logger.error(f"Failed to generate CRD for {model_key}: {e}")
                raise

            filename = f"{crd_def['metadata']['name']}.yaml"
            with open(self.output_dir / filename, "w") as f:
                yaml.dump(crd_def, f, default_flow_style=False, sort_keys=False)

            generated_files.append(filename)
            logger.info(f"Generated CRD: {filename}")

        self._generate_kustomization(generated_files)
        hash_file.write_text(current_hash)

        logger.info(f"Generated {len(generated_files)} CRD files")
        return True

    def generate_crd_definition(self, model_info):
        """Generate a single CRD definition from model info."""
        model_class = model_info["model"]
        group = model_info["group"]
        plural = model_info["plural"]

        try:
            spec_schema = model_class.model_json_schema()
        except Exception as e:
            raise ValueError(
                f"Failed to generate schema for {model_class.__name__}: {e}"
            ) from e

        status_schema = {"type": "object", "additionalProperties": True}
        status_model = model_info.get("status_model")
        if status_model is not None:
            status_schema = self.converter.convert_schema(
                status_model.model_json_schema()
            )

        version = {
            "name": model_info["version"],
            "served": True,
            "storage": True,
            "schema": {
                "openAPIV3Schema": {
                    "type": "object",
                    "properties": {
                        "spec": self.converter.convert_schema(spec_schema),
                        "status": status_schema,
                    },
                    "required": ["spec"],
                }
            },
            "subresources": {"status": {}},
        }
        if model_info.get("printer_columns"):
            version["additionalPrinterColumns"] = model_info["printer_columns"]

        return {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": f"{plural}.{group}"},
            "spec": {
                "group": group,
                "versions": [version],
                "scope": model_info["scope"],
                "names": {
                    "plural": plural,
                    "singular": model_info["singular"],
                    "kind": model_info["kind"],
                    "shortNames": model_info["short_names"],
                },
            },
        }

    def _generate_kustomization(self, filenames):
        """Generate kustomization.yaml for all CRDs."""
        kustomization = {
            "apiVersion": "kustomize.config.k8s.io/v1beta1",
            "kind": "Kustomization",
            "resources": sorted(filenames),
        }

        with open(self.output_dir / "kustomization.yaml", "w") as f:
            yaml.dump(kustomization, f, default_flow_style=False)

        logger.info("Generated kustomization.yaml")

    def _calculate_models_hash(self):
        """Calculate hash of all model definitions for change detection."""
        self.registry.discover_models()
        models = self.registry.get_all_models()

        model_data = {}
        for model_key, model_info in sorted(models.items()):
            model_data[model_key] = self.generate_crd_definition(model_info)

        model_json = json.dumps(model_data, sort_keys=True)
        return hashlib.sha256(model_json.encode()).hexdigest()

    def get_crds_as_dict(self):
        """Generate all CRDs as in-memory dictionary objects.

        Returns:
            Dict mapping CRD names to their definitions
        """
        self.registry.discover_models()

        crds = {}
        for model_info in self.registry.get_all_models().values():
            crd_def = self.generate_crd_definition(model_info)
            crds[crd_def["metadata"]["name"]] = crd_def

        return crds

    def apply_crds_to_cluster(self, api_client=None):
        """Create or replace every CRD in the cluster.

        Args:
            api_client: ApiextensionsV1Api instance (built from the loaded config if omitted)

        Returns:
            int: number of CRDs applied
        """
        from kubernetes import client

        api_client = api_client or client.ApiextensionsV1Api()

        applied_count = 0
        for crd_name, crd_def in self.get_crds_as_dict().items():
            try:
                existing = api_client.read_custom_resource_definition(crd_name)
                crd_def["metadata"]["resourceVersion"] = (
                    existing.metadata.resource_version
                )
                api_client.replace_custom_resource_definition(
                    name=crd_name, body=crd_def
                )
                logger.info(f"Updated CRD: {crd_name}")
            except client.exceptions.ApiException as e:
                if e.status != 404:
                    raise
                api_client.create_custom_resource_definition(body=crd_def)
                logger.info(f"Created CRD: {crd_name}")

            applied_count += 1

        logger.info(f"Applied {applied_count} CRDs to cluster")
        return applied_count

    def validate_generated_crds(self):
        """Validate that generated CRDs are valid Kubernetes resources."""
        if not self.output_dir.exists():
            logger.error("CRD output directory does not exist")
            return False

        crd_files = [
            f
            for f in self.output_dir.glob("*.yaml")
            if f.name != "kustomization.yaml"
        ]

        if not crd_files:
            logger.error("No CRD files found to validate")
            return False

        valid_count = 0
        for crd_file in crd_files:
            try:
                with open(crd_file, "r") as f:
                    crd_def = yaml.safe_load(f)
            except yaml.YAMLError as e:
                logger.error(f"Failed to parse {crd_file}: {e}")
                continue

            if not isinstance(crd_def, dict):
                logger.error(f"Invalid YAML in {crd_file}")
                continue

            required_fields = ["apiVersion", "kind", "metadata", "spec"]
            if not all(field in crd_def for field in required_fields):
                logger.error(f"Missing required fields in {crd_file}")
                continue

            if crd_def["kind"] != "CustomResourceDefinition":
                logger.error(f"Not a CRD: {crd_file}")
                continue

            valid_count += 1
            logger.debug(f"Valid CRD: {crd_file}")

        logger.info(f"Validated {valid_count}/{len(crd_files)} CRD files")
        return valid_count == len(crd_files)
