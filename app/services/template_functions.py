# services/template_functions.py
"""
CloudFormation intrinsic functions as plain dicts.

Templates are built as nested dicts and serialized to JSON, which
CloudFormation accepts as a TemplateBody alongside YAML.
"""

import json
from typing import Any, Dict, List, Mapping

TEMPLATE_FORMAT_VERSION = "2010-09-09"

# Pseudo parameter that removes a property when returned from Fn::If
NO_VALUE = "AWS::NoValue"


def new_template(description: str) -> Dict[str, Any]:
    return {
        "AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION,
        "Description": description,
        "Parameters": {},
        "Conditions": {},
        "Resources": {},
        "Outputs": {},
    }


def ref(name: str) -> Dict[str, str]:
    return {"Ref": name}


def get_att(resource: str, attribute: str) -> Dict[str, List[str]]:
    return {"Fn::GetAtt": [resource, attribute]}


def equals(left: Any, right: Any) -> Dict[str, List[Any]]:
    return {"Fn::Equals": [left, right]}


def if_(condition: str, when_true: Any, when_false: Any) -> Dict[str, List[Any]]:
    return {"Fn::If": [condition, when_true, when_false]}


def sub(text: str) -> Dict[str, str]:
    return {"Fn::Sub": text}


def tag_list(tags: Mapping[str, str]) -> List[Dict[str, str]]:
    """Key/Value tag list in a stable order."""
    return [{"Key": key, "Value": value} for key, value in sorted(tags.items())]


def output(description: str, value: Any, export_name: str) -> Dict[str, Any]:
    return {
        "Description": description,
        "Value": value,
        "Export": {"Name": export_name},
    }


def to_template_body(template: Mapping[str, Any]) -> str:
    """Serialize a template for CreateStack. Empty sections are dropped."""
    body = {key: value for key, value in template.items() if value != {}}
    return json.dumps(body, sort_keys=True)
