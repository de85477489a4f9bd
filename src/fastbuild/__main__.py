from fastbuild.cli import main

raise SystemExit(main())
