"""SmartBridge mini-site master-save and publish service."""
