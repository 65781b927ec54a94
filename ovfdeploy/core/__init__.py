# ovfdeploy/core/__init__.py
