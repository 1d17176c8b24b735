from rendergit_report.cli import main

raise SystemExit(main())
