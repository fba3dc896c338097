# rules package: layer geometry (pricing, sizing) and exit rules
