from approval_gate.cli import main

main()
