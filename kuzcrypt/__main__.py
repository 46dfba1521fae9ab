from kuzcrypt.cli import main

raise SystemExit(main())
