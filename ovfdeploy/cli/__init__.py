# ovfdeploy/cli/__init__.py
